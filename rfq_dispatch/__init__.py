"""RFQ matching-and-distribution core.

Selects and scores travel agencies for a traveler's trip request, records one
delivery-tracking Distribution per matched agency, and delivers the request to
each agency's reachable channels through an at-least-once job queue.
"""

__version__ = "0.1.0"
