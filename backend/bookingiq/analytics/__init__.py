"""
Analytics package: query planning, aggregation, statistics and insights
"""
