"""Cross-cutting infrastructure: settings, logging, errors, wiring."""
