"""Cyber Cabinet: multi-role meeting orchestration with meeting memory."""
