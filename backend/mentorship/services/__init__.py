"""Service layer: business rules, transactions and post-commit side effects."""
