"""Class Attendance package.

This package is organized by feature modules (users, classes, sessions,
attendance, reports) with a thin Flask controller layer over service and
repository layers.
"""
