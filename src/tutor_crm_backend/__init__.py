"""
Tutor CRM backend: lesson lifecycle, payments and student balances for a
tutoring center, served as a FastAPI application (see `main.app`).
"""
