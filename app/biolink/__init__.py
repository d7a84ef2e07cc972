"""
BioLink: resilient client for a streaming PPG/ECG sensor link.
"""

__version__ = "0.1.0"
