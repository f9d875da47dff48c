"""Image tag resolution and registry checks."""
