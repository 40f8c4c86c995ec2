"""Numbered-ticket draws: inventory allocation, payment ledger and winner resolution."""
