"""
Services layer - business logic lives here, routes stay thin.

- status_workflow: report lifecycle state machine
- store: report persistence + live snapshots
- report_service / image_service: submission, triage, attachments
- dashboard: live aggregation and view state
- environment: weather and air-quality readings
"""
