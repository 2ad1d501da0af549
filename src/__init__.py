"""
PM2.5 forecast model comparison.

Modules:
- pm25: load the daily PM2.5 table, fit OLS / random forest / ETS / TBATS /
  ARIMA-with-regressors / Prophet, compare residuals and cross-validated RMSE
"""
