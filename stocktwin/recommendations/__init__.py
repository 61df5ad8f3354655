"""
Recommendation store and export: persisted restock recommendations produced
by the forecasting orchestrator.

Modules
-------
store    : RecommendationStore — add(), list_recent(), set_status().
reporter : prioritize() + write_recommendations_csv() +
           write_recommendations_json() — file output, no DB access.
"""
