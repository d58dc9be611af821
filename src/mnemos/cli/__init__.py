"""mnemos command-line interface."""
