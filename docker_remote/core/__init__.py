"""Core remote execution, decoding and compose discovery for docker_remote."""
