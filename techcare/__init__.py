"""TechCare client session layer.

Headless library that keeps a desktop or web-view client's signed-in
user consistent with Supabase auth, the profile tables and the local
encrypted cache.
"""

__version__ = "1.0.0"
