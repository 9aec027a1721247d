"""
Rent Management Application
Properties, tenants, tenancies and monthly rent records for a single landlord
"""
