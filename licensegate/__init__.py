"""
LicenseGate - time-bounded, hardware-bound product licensing service
"""
__version__ = "1.0.0"
