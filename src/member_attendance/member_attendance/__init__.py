"""Member Attendance package.

This package is organized by feature modules (members, attendance, presence,
reports, ...) with a thin Flask controller layer and service/repository layers.
"""
