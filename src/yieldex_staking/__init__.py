"""
Staking mirror service for Yieldex protocol.
Reads APY and TVL of staking contracts and stores them in Supabase.
"""

__version__ = "0.3.0"
