"""
Heimdall - Remote Desktop Control Panel

This package provides a local control panel that:
- Keeps a curated list of VNC/RDP devices in a JSON config file
- Launches and supervises one external viewer process at a time
- Serves an HTTP API and browser UI for both
"""

__version__ = "1.0.0"
