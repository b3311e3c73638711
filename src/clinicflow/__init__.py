"""ClinicFlow platform: clinics, patients, protocols and subscription billing."""

__version__ = "0.1.0"
