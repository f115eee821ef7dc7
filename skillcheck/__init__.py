"""SkillCheck: adaptive multiple-choice skills evaluation.

The Flask application is built by ``skillcheck.app.create_app``; the
selection engine lives under ``skillcheck.core.evaluate``.
"""

__version__ = "0.1.0"
