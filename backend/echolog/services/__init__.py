"""
EchoLog Backend — Services Layer
==================================

What:  Business logic between the routes (HTTP) and the repository (persistence).
How:   Services receive their cloud collaborators through the constructor and
       the request's EchoLogRepository per call. Providers live in
       echolog.dependencies.

Service Inventory:
    - TranscriptionCoordinator: audio/text/document intake, job polling, cascade delete
    - AnalysisService:          model-backed transcript analysis and its history
    - DashboardService:         per-user statistics and audio availability
    - BillingService:           cost report from the billing export
    - AuthService:              Google sign-in and bearer tokens
    - SpeechService / BlobStore / LLMService / DocumentExtractor: cloud and file adapters
"""
