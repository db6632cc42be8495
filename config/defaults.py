"""Default configuration constants for the Workforce Scenario Planning Platform."""

# Logging
LOGGING_LEVEL = "INFO"

# Forecasting
MIN_FORECAST_POINTS = 7
MOVING_AVERAGE_WINDOW = 7
SEASONAL_PERIODS = [7, 30, 90]      # weekly, monthly, quarterly
MIN_SEASONAL_POINTS = 14
AUTOCORRELATION_THRESHOLD = 0.3
CONFIDENCE_FLOOR = 0.5
CONFIDENCE_DECAY_DAYS = 30
STABLE_SLOPE_BAND = 0.1             # |slope| below this = "stable"
DEFAULT_FORECAST_DAYS = 30

# Demand aggregation
BOTTLENECK_RATIO = 1.5              # peak > ratio * average = bottleneck
DEFAULT_PHASE_DURATION_DAYS = 14
DEFAULT_PROJECT_TYPE = "software_development"

# Utilization thresholds
PEAK_UTILIZATION_THRESHOLD = 0.9    # above = "low" severity peak
OVERALLOCATION_THRESHOLD = 1.0      # above = "medium"
CRITICAL_UTILIZATION_THRESHOLD = 1.2  # above = "high"
UNDERUTILIZATION_THRESHOLD = 0.5

# Baseline capacity (FTE per skill) used when none is configured
DEFAULT_BASELINE_CAPACITY = {
    "product_manager": 2,
    "architect": 2,
    "analyst": 2,
    "ui_designer": 2,
    "frontend_dev": 4,
    "backend_dev": 5,
    "qa_engineer": 3,
    "devops": 2,
    "data_analyst": 2,
    "domain_expert": 1,
    "data_engineer": 2,
    "data_scientist": 2,
    "statistician": 1,
}

# Cost
DAILY_RATE = 500.0                  # cost per person-day of demand
DEFAULT_HOURLY_RATE = 75.0
HOURS_PER_DAY = 8
RISK_BUFFER_PCT = 0.10

# Monte Carlo risk assessment
MONTE_CARLO_ITERATIONS = 1000
DURATION_VARIATION = (0.8, 1.2)
COST_VARIATION = (0.85, 1.15)
MAX_SIMULATED_DELAY_DAYS = 30

# Risk labels (mean probability x impact)
RISK_CRITICAL_SCORE = 0.7
RISK_HIGH_SCORE = 0.5
RISK_MEDIUM_SCORE = 0.3

# Conflict severity (percentage points over 100)
CONFLICT_MEDIUM_EXCESS = 10
CONFLICT_HIGH_EXCESS = 25
MAX_ALLOCATION_PCT = 100.0

# Genetic optimizer
POPULATION_SIZE = 20
ELITE_FRACTION = 0.2
TOURNAMENT_SIZE = 3
MUTATION_RATE = 0.1
MUTATION_MAGNITUDE = 0.1            # fraction of the parameter's declared range
MAX_GENERATIONS = 50
CONVERGENCE_WINDOW = 10
CONVERGENCE_THRESHOLD = 0.01
ERROR_PENALTY = 500
WARNING_PENALTY = 100
DEFAULT_OBJECTIVES = ["minimize_cost", "minimize_timeline", "minimize_risk"]

# Sensitivity analysis
DEFAULT_VARIATIONS = [-0.2, -0.1, 0.0, 0.1, 0.2]

# Comparison cache
COMPARISON_TTL_SECONDS = 24 * 60 * 60

# Parallel evaluation
MAX_WORKERS = 4

# Default evaluation horizon (days)
DEFAULT_HORIZON_DAYS = 365

# Planning horizons (months)
PLANNING_HORIZONS = [3, 6, 12]
DEFAULT_PLANNING_HORIZON = 6

# Scenario types
SCENARIO_TYPES = [
    "what-if",
    "forecast",
    "template",
    "growth",
    "efficiency",
    "custom",
]

SCENARIO_STATUSES = ["draft", "active", "archived"]

# Phase templates keyed by project type
PHASE_TEMPLATES = {
    "software_development": [
        {"name": "Planning", "team_size": 3, "utilization_rate": 0.6,
         "skills": ["product_manager", "architect", "analyst"]},
        {"name": "Design", "team_size": 4, "utilization_rate": 0.7,
         "skills": ["architect", "ui_designer", "frontend_dev"]},
        {"name": "Implementation", "team_size": 8, "utilization_rate": 0.9,
         "skills": ["frontend_dev", "backend_dev", "qa_engineer"]},
        {"name": "Testing", "team_size": 5, "utilization_rate": 0.8,
         "skills": ["qa_engineer", "backend_dev", "devops"]},
        {"name": "Deployment", "team_size": 3, "utilization_rate": 0.7,
         "skills": ["devops", "backend_dev", "qa_engineer"]},
    ],
    "data_analytics": [
        {"name": "Discovery", "team_size": 2, "utilization_rate": 0.5,
         "skills": ["data_analyst", "domain_expert"]},
        {"name": "Data Collection", "team_size": 3, "utilization_rate": 0.8,
         "skills": ["data_engineer", "backend_dev"]},
        {"name": "Analysis", "team_size": 4, "utilization_rate": 0.9,
         "skills": ["data_scientist", "data_analyst", "statistician"]},
        {"name": "Visualization", "team_size": 3, "utilization_rate": 0.7,
         "skills": ["data_analyst", "frontend_dev", "ui_designer"]},
    ],
}
