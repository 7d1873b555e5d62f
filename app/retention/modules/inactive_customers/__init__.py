"""
Inactive customers module (GDPR retention).

Scope:
- Count / page through customers with no login and no order since a cutoff
- Export their emails (csv, json, text)
- Remove them in batches, skipping anyone who ever placed an order
"""
