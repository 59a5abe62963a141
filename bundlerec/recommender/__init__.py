"""Recommendation core for BundleRec.

Co-purchase analysis, content similarity, hybrid ranking, discount rules
and bundle composition, plus the data gateways they read from.
"""
