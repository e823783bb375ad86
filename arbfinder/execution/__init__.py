"""Order execution: models, portfolio accounting, risk management and the execution engine."""