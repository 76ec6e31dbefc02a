import dataclasses
import time

import matplotlib.pyplot as plt
import numpy as np
from loguru import logger
from sklearn.linear_model import ElasticNet as SklearnElasticNet
from sklearn.linear_model import LogisticRegression as SklearnLogisticRegression
from sklearn.linear_model import PoissonRegressor as SklearnPoissonRegressor
from sklearn.linear_model import Ridge as SklearnRidge

from config import GLMOptimizationConfiguration, OptimizerType, TaskType
from evaluation import AreaUnderROCCurveLocalEvaluator, RMSELocalEvaluator
from optimization_problem import build_objective_function, build_optimization_problem
from utils import generate_and_preprocess_data


class Simulator:
    """Trains one distributed GLM per configured optimizer and compares them."""

    def __init__(self, config):
        self.config = config
        self.task_type = TaskType(config['problem_type'])
        self.train_data, self.X_full, self.y_full, self.X_holdout, self.y_holdout = \
            generate_and_preprocess_data(config['n_workers'], config)
        self.n_features = self.X_full.shape[1]
        self.opt_config = GLMOptimizationConfiguration.from_dict(config)
        self.f_opt = self._compute_reference_optimum()
        self.results = {}
        self.numerical_results = {}
        self.models = {}

    def _full_objective(self, coefficients):
        context = self.opt_config.regularization_context
        weight = self.opt_config.regularization_weight
        objective = build_objective_function(self.task_type,
                                             l2_regularization_weight=context.get_l2_regularization_weight(weight))
        value = objective.value(self.train_data, coefficients)
        return value + context.get_l1_regularization_weight(weight) * np.abs(coefficients).sum()

    def _compute_reference_optimum(self):
        context = self.opt_config.regularization_context
        weight = self.opt_config.regularization_weight
        l2 = context.get_l2_regularization_weight(weight)
        n_samples = self.X_full.shape[0]
        max_iter_ref = 5000
        tol_ref = 1e-10

        # Same objective as ours: intercept column included and regularized, no sklearn intercept
        if self.task_type == TaskType.LINEAR_REGRESSION and context.has_l1:
            solver = SklearnElasticNet(alpha=weight / n_samples, l1_ratio=context.alpha, fit_intercept=False,
                                       max_iter=100000, tol=tol_ref)
        elif context.has_l1 or self.task_type == TaskType.SMOOTHED_HINGE_LOSS_LINEAR_SVM:
            logger.info(f"No reference solver for {self.task_type.value} with {context}")
            return None
        elif self.task_type == TaskType.LOGISTIC_REGRESSION:
            C_param = 1.0 / l2 if l2 > 1e-12 else 1e12
            solver = SklearnLogisticRegression(C=C_param, fit_intercept=False, solver='lbfgs',
                                               max_iter=max_iter_ref, tol=tol_ref)
        elif self.task_type == TaskType.LINEAR_REGRESSION:
            solver = SklearnRidge(alpha=l2, fit_intercept=False)
        else:
            solver = SklearnPoissonRegressor(alpha=l2 / n_samples, fit_intercept=False,
                                             max_iter=max_iter_ref, tol=tol_ref)

        solver.fit(self.X_full, self.y_full)
        w_opt = np.asarray(solver.coef_, dtype=float).flatten()
        f_opt_val = self._full_objective(w_opt)
        logger.info(f"Ref f(x*) calculated: {f_opt_val:.6f}")
        return f_opt_val

    def _evaluate_holdout(self, model):
        ids = range(self.y_holdout.shape[0])
        if self.task_type.is_classification:
            evaluator = AreaUnderROCCurveLocalEvaluator.from_labels(dict(zip(ids, self.y_holdout)))
            scores = model.compute_score(self.X_holdout)
        else:
            evaluator = RMSELocalEvaluator.from_labels(dict(zip(ids, self.y_holdout)))
            scores = model.compute_mean(self.X_holdout)
        return type(evaluator).__name__, evaluator.evaluate(dict(zip(ids, scores)))

    def _record_numerical_results(self, label, history, problem, model, elapsed):
        threshold = self.config.get('suboptimality_threshold', 0.05)
        objective_history = np.array(history.get('objective', []))
        iters_to_threshold = -1
        # First index where the gap is below the threshold
        if self.f_opt is not None and len(objective_history) > 0:
            reached_indices = np.where(objective_history <= threshold)[0]
            if len(reached_indices) > 0:
                iters_to_threshold = int(reached_indices[0])

        total_transmission = problem.objective_function.floats_transmitted
        n_workers_effective = self.train_data.num_partitions
        tracker = problem.get_state_tracker()
        metric_name, metric_value = self._evaluate_holdout(model)

        self.numerical_results[label] = {
            'iterations_to_threshold': iters_to_threshold,
            'iterations': tracker.tracked_states[-1].iteration if tracker else 'N/A',
            'convergence_reason': tracker.convergence_reason.value if tracker else 'N/A',
            'total_transmission_floats': total_transmission,
            'avg_worker_transmission_floats': total_transmission / n_workers_effective,
            'holdout_metric': (metric_name, metric_value),
            'time': elapsed,
        }

    def run_one(self, optimizer_type):
        label = optimizer_type.value
        opt_config = dataclasses.replace(
            self.opt_config,
            optimizer_config=dataclasses.replace(self.opt_config.optimizer_config, optimizer_type=optimizer_type))
        problem = build_optimization_problem(
            opt_config, self.task_type,
            tree_aggregate_depth=self.config.get('tree_aggregate_depth', 2),
            is_computing_variances=self.config.get('compute_variances', False),
            seed=self.config.get('seed', 203))
        if problem.regularization_context.has_l1:
            label = type(problem.optimizer).__name__

        logger.info(f"--- Running {label} ({self.task_type.value}) ---")
        start_time = time.time()
        model = problem.run(self.train_data)
        elapsed = time.time() - start_time
        variances = model.coefficients.variances
        if variances is not None:
            logger.info(f"{label} coefficient standard errors: min {np.sqrt(variances.min()):.4g}, "
                        f"max {np.sqrt(variances.max()):.4g}")

        tracker = problem.get_state_tracker()
        if problem.sampler is None:
            losses = [state.loss for state in tracker.tracked_states]
        else:
            # Tracked losses are on the sampled data; f_opt is on the full training set
            losses = [self._full_objective(state.coefficients) for state in tracker.tracked_states]
        history = {'loss': losses, 'time': tracker.times}
        if self.f_opt is not None:
            history['objective'] = [loss - self.f_opt for loss in losses]
        self.results[label] = history
        self.models[label] = model
        self._record_numerical_results(label, history, problem, model, elapsed)
        logger.info(f"{label} training finished. Time: {elapsed:.2f} seconds")
        return model

    def run_all(self):
        logger.info(f"=== Starting Simulation: {self.task_type.value} ===")
        for name in self.config.get('optimizers', ['LBFGS', 'TRON']):
            optimizer_type = OptimizerType(name.upper())
            if optimizer_type == OptimizerType.TRON and (
                    self.opt_config.regularization_context.has_l1
                    or self.task_type == TaskType.SMOOTHED_HINGE_LOSS_LINEAR_SVM):
                logger.info("Skipping TRON: needs a twice differentiable objective without L1")
                self.numerical_results['TRON'] = None
                continue
            self.run_one(optimizer_type)
        logger.info("=== Simulation Finished ===")
        self.report_numerical_results()

    def report_numerical_results(self):
        print("\n--- Numerical Results ---")
        threshold = self.config.get('suboptimality_threshold', 0.05)
        print(f"Target Suboptimality Gap Threshold: {threshold}")
        labels = sorted(self.numerical_results.keys())
        max_label_len = max(len(label) for label in labels) + 2 if labels else 2

        print(f"\nIterations to reach suboptimality gap <= {threshold}:")
        for label in labels:
            data = self.numerical_results[label]
            if data is None:
                print(f"  {label:<{max_label_len}}: N/A")
            elif self.f_opt is None:
                print(f"  {label:<{max_label_len}}: no reference optimum, {data['iterations']} iterations run")
            elif data['iterations_to_threshold'] == -1:
                print(f"  {label:<{max_label_len}}: > {data['iterations']}, threshold not reached")
            else:
                print(f"  {label:<{max_label_len}}: {data['iterations_to_threshold']} iterations")

        print("\nConvergence and holdout metric:")
        for label in labels:
            data = self.numerical_results[label]
            if data is None:
                continue
            metric_name, metric_value = data['holdout_metric']
            print(f"  {label:<{max_label_len}}: {data['convergence_reason']}, "
                  f"{metric_name} = {metric_value:.4f}, time = {data['time']:.2f}s")

        print("\nTotal Data Transmission in floats:")
        for label in labels:
            data = self.numerical_results[label]
            if data is None:
                print(f"  {label:<{max_label_len}}: Total = N/A, Avg per Worker = N/A")
            else:
                print(f"  {label:<{max_label_len}}: Total = {data['total_transmission_floats']:.3e}, "
                      f"Avg per Worker = {data['avg_worker_transmission_floats']:.3e}")

    def plot_results(self, output_path=None):
        metric_key = 'objective' if self.f_opt is not None else 'loss'
        title = ('Suboptimality Gap ($f(x_k) - f(x^*)$)' if self.f_opt is not None
                 else 'Objective value $f(x_k)$') + f" - {self.task_type.value}"

        fig, ax = plt.subplots(figsize=(7, 6))
        for label in sorted(self.results.keys()):
            values_to_plot = np.array(self.results[label][metric_key])
            # Prevent plot errors for non-finite values
            if np.any(~np.isfinite(values_to_plot)):
                logger.warning(f"Non-finite values found in '{metric_key}' for '{label}'. Skipping plot line.")
                continue
            values_to_plot = np.maximum(values_to_plot, 1e-14)
            ax.plot(np.arange(len(values_to_plot)), values_to_plot, label=label, lw=2)

        ax.set_xlabel('Iteration (k)')
        ax.set_ylabel('Value (log scale)')
        ax.set_yscale('log')
        ax.set_title(title)
        ax.grid(True, which='both', linestyle='--', linewidth=0.5)
        ax.legend()
        fig.text(0.5, 0.01,
                 f"Config: N={self.config['n_workers']}, Problem={self.task_type.value}, Non-IID Data, "
                 f"{self.opt_config.regularization_context} $\\lambda$={self.opt_config.regularization_weight}",
                 ha="center", fontsize=10)
        fig.tight_layout(rect=[0, 0.05, 1, 0.97])
        if output_path is None:
            plt.show()
        else:
            fig.savefig(output_path)
        plt.close(fig)
