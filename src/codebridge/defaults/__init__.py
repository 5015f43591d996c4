"""Packaged YAML defaults for CodeBridge."""
