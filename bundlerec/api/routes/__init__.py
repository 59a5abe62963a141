"""Route modules for the BundleRec API."""
