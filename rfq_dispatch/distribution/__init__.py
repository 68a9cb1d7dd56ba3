"""RFQ distribution pipeline.

Modules:
- payloads: trip request -> frozen notification payload
- coordinator: idempotent distribution-record creation, job enqueueing, status API
- targets: agency -> reachable delivery targets
- worker: per-job fan-out delivery and outcome recording
- intake: polls OPEN trip requests and distributes them
- reconciliation: requeues PENDING records whose jobs never ran
- errors: delivery error hierarchy and transient/permanent classification
"""
