"""
Core licensing components: credentials, revocation, entitlement accounting,
hardware binding, authorization, key issuance and redemption.
"""
