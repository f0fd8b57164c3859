"""
BrandForge backend.

Metered AI-action pipeline for brand content: creative brief validation,
prompt compilation, reference-asset admission, image generation with
bounded retries, and free-tier/credit settlement per team.
"""

__version__ = "0.1.0"
