"""utils tests"""
