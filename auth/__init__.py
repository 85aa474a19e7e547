"""auth/ -- Authentication and user-identity package for Keystone.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/. api/ imports from auth/, not the other way
around. auth/dependencies.py is the single FastAPI-aware module here.
"""
