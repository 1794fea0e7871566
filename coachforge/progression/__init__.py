"""Progression analysis over workout logs.

Deterministic computation only:
- compliance: adherence, streaks and RPE against weekly targets
- trends: volume, RPE and per-exercise load
- deload: trigger evaluation against a program's deload protocol
- insights: combines the above into a score and recommendations
"""
