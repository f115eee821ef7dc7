"""
REST API module for SkillCheck.

Provides Flask REST API endpoints for:
- Attempt lifecycle and answer submission
- Results and weak-area reports
- Attempt integrity repair
"""
