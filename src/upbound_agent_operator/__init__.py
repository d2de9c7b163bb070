"""Operator that keeps the Upbound Agent deployed while a control plane token exists."""

__version__ = "0.1.0"
