# Presentation Layer
# ==================
# JSON API over the application services (app.py).
