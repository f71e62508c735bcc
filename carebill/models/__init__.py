# carebill/models/__init__.py
