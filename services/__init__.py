"""
HILALWATCH Services

External collaborators of the engine (currently the ephemeris provider).
"""
