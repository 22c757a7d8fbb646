"""DHCP packets, client, server and lease handling, and a captive-portal DNS responder."""

__version__ = "0.11.2"