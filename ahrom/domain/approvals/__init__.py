"""Approval ledger: one sign-off row per required role for each order"""
