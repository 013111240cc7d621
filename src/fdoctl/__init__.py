"""Provisioning and orchestration driver for FDO onboarding test environments."""

__version__ = "0.1.0"
