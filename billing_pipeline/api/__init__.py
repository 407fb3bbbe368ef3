"""Operator HTTP surface."""
