"""Commons package - settings, telemetry and storage provider abstractions."""
