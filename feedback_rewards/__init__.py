# Feedback Rewards - Spoken Feedback to Loyalty Points
# ====================================================
# Diners record or type feedback, it becomes a structured review, and the
# first qualifying action each day earns points redeemable for vouchers.
#
# ARCHITECTURE LAYERS:
# - Presentation:   FastAPI JSON API (web/)
# - Application:    Use cases and orchestration (feedback, points, rewards)
# - Domain:         Pure business logic (no external dependencies)
# - Infrastructure: External services (speech-to-text, LLM, SQLite, settings)
#
# Speech and LLM providers can be swapped without touching the ledger.
