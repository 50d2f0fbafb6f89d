"""ScopeStack estimator.

Creates a sales estimate from a single form submission by driving the
ScopeStack API through a fixed provisioning sequence:

- Client find-or-create and project creation
- Questionnaire survey, recommendation calculation and apply
- Statement-of-work document generation
- Pricing and services read-back
- AI-written executive summary from an editable prompt template
"""

__version__ = "1.0.0"
