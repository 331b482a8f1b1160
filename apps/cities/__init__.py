"""
Cities application.

Cities, their translations and all city-owned map content, plus the
city-scoped data accessor and the operator, superuser and public endpoints.
"""
