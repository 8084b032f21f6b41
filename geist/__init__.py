"""Geist Supervisor - release installer and version manager for Roc Camera devices."""

__version__ = "0.1.6"
