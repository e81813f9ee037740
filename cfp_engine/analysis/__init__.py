"""Response analysis and fingerprint aggregation.

Per reply:   mention detection -> sentiment -> rank & competitors -> QueryResult
Per run:     QueryResult[] -> visibility score, mention rate, leaderboard
"""
