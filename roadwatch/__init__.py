"""
RoadWatch - Citizen road defect reporting
Report submission, moderation and rewards for municipal road maintenance.
"""

__version__ = "0.2.0"
