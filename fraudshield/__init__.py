"""FraudShield: transactional fraud-decision engine."""
