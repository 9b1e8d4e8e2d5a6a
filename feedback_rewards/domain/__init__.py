# Domain Layer
# ============
# Pure business logic with no external dependencies:
# - models.py: reviews, point accounts, rewards, vouchers, result enums
# - review_schema.py: decode + validate/repair of language model output
# - heuristics.py: deterministic keyword fallback analyzer
# - sharing.py: shareable review text
