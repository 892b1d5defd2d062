"""Foundation: configuration, error taxonomy and test helpers."""
