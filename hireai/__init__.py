"""
HireAI - proctored hiring assessments with AI-assisted scoring
"""

__version__ = "1.0.0"
