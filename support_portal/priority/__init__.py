"""
Priority Module
===============

Bounded context for ticket priority scoring.

Responsibilities:
- Sum independent weighted factors (vendor GMV tier, issue category,
  vendor ticket volume, repeat issues) into a score
- Threshold the score into Critical/High/Medium/Low with P0-P3 badges
- Derive vendor GMV tiers from 90-day GMV
"""
