"""
EthicsDesk

Multi-tenant ethics and compliance case management: public, operator and
employee intake portals, case pipeline/outcome/merge workflows, audit
logging and attachment storage, all behind a per-organization isolation
boundary.
"""

__version__ = "1.0.0"
