# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - speech/: speech-to-text providers and the transcription racer
# - llm/: structured review analysis over an OpenAI-compatible API
# - persistence/: SQLite repository for reviews, points and vouchers
# - config/: Environment and settings management
#
# This layer can be replaced entirely without affecting domain/application layers.
