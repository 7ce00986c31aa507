"""ReconSuite -- recon tool orchestration with live output streaming."""

__version__ = "1.0.0"
