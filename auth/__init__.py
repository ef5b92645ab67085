"""auth/ -- Session lifecycle package for Tokengate.

Layer rule: auth/ imports only stdlib + third-party libraries (and the
Settings type from core/ for construction). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
