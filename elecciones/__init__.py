"""Election core for school organizations: lifecycle, ballot validation,
the transactional vote ledger and results aggregation."""

__version__ = "0.1.0"
