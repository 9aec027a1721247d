"""
Rent accounting core: data models, schedule engine and payment rules
"""
