"""
Courses.

Course records are managed out of band; this module owns the schema and the read-side
helpers other modules rely on (status derivation, teacher membership).
"""
