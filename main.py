from simulator import Simulator

N_WORKERS = 25              # Number of data partitions
TREE_AGGREGATE_DEPTH = 2    # Depth of the partial-sum aggregation tree
MAX_ITERATIONS = 100        # Optimizer iteration cap
TOLERANCE = 1e-7            # Relative convergence tolerance
OPTIMIZERS = ['LBFGS', 'TRON']
SUBOPTIMALITY_THRESHOLD = 1e-3  # for reporting

PROBLEM_TYPE = 'logistic'  # 'logistic', 'linear', 'poisson', 'smoothed_hinge'

N_SAMPLES = N_WORKERS * 500
N_FEATURES = 80
N_INFORMATIVE_FEATURES = 50
CLASSIFICATION_SEP = 0.7

REGULARIZATION = 'L2'       # 'NONE', 'L1', 'L2', 'ELASTIC_NET'
REGULARIZATION_WEIGHT = 1.0
ELASTIC_NET_ALPHA = 0.5
DOWN_SAMPLING_RATE = 1.0
COMPUTE_VARIANCES = True
SEED = 203
PLOT_OUTPUT = None          # File path for the plot, None shows it interactively

if __name__ == "__main__":
    sim_config = {
        'n_workers': N_WORKERS,
        'tree_aggregate_depth': TREE_AGGREGATE_DEPTH,
        'max_iterations': MAX_ITERATIONS,
        'tolerance': TOLERANCE,
        'optimizers': OPTIMIZERS,
        'problem_type': PROBLEM_TYPE,
        'n_samples': N_SAMPLES,
        'n_features': N_FEATURES,
        'n_informative_features': N_INFORMATIVE_FEATURES,
        'classification_sep': CLASSIFICATION_SEP,
        'regularization': REGULARIZATION,
        'regularization_weight': REGULARIZATION_WEIGHT,
        'elastic_net_alpha': ELASTIC_NET_ALPHA,
        'down_sampling_rate': DOWN_SAMPLING_RATE,
        'compute_variances': COMPUTE_VARIANCES,
        'suboptimality_threshold': SUBOPTIMALITY_THRESHOLD,
        'seed': SEED,
    }
    simulator = Simulator(sim_config)
    simulator.run_all()
    simulator.plot_results(PLOT_OUTPUT)
