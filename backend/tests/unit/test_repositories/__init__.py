"""repositories tests"""
