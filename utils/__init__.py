"""Book Tracker - helper modules

- validators.py: record and image validation
- ui_helpers.py: CLI output formatting (plain / json / rich)
"""
