"""Multi-architecture consistency audit of bundles published through an index image."""
