"""
Activated Sludge Model No. 1 for a single aerated CSTR with solids retention.

State vector (mg/L, alkalinity in mol/m³), BSM1 component order:
    S_I, S_S, X_I, X_S, X_BH, X_BA, X_P, S_O, S_NO, S_NH, S_ND, X_ND, S_ALK

Soluble components leave with the effluent flow (Q/V); particulate components
leave with the waste sludge (1/SRT). Dissolved oxygen is held at the setpoint.
Integration is fixed-step classical Runge-Kutta.
"""
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

STATE_COMPONENTS = (
    "S_I", "S_S", "X_I", "X_S", "X_BH", "X_BA", "X_P",
    "S_O", "S_NO", "S_NH", "S_ND", "X_ND", "S_ALK",
)
N_STATES = len(STATE_COMPONENTS)
(S_I, S_S, X_I, X_S, X_BH, X_BA, X_P,
 S_O, S_NO, S_NH, S_ND, X_ND, S_ALK) = range(N_STATES)

PARTICULATE = np.zeros(N_STATES, dtype=bool)
PARTICULATE[[X_I, X_S, X_BH, X_BA, X_P, X_ND]] = True
PARTICULATE_COD = [X_I, X_S, X_BH, X_BA, X_P]

PROCESSES = (
    "aerobic_growth_heterotrophs",
    "anoxic_growth_heterotrophs",
    "aerobic_growth_autotrophs",
    "decay_heterotrophs",
    "decay_autotrophs",
    "ammonification",
    "hydrolysis_organics",
    "hydrolysis_organic_nitrogen",
)

# Influent COD fractions (S_I, S_S, X_I, X_S)
COD_FRACTIONS = {"S_I": 0.07, "S_S": 0.20, "X_I": 0.13, "X_S": 0.60}
AMMONIA_FRACTION_OF_TKN = 0.65
TKN_TO_COD_DEFAULT = 0.1
SOLUBLE_ORGANIC_N_FRACTION = 0.3
DEFAULT_ALKALINITY = 350.0         # mg/L as CaCO3
ALKALINITY_MG_PER_MOL = 50.0

TSS_PER_COD = 0.75                 # BSM1
BOD5_PER_BOD_ULTIMATE = 0.25       # BSM1 effluent BOD5 factor
COD_PER_VSS = 1.42

MAX_STEP_SIZE = 0.05               # d
DEFAULT_TOLERANCE = 1e-3           # relative change per day
DEFAULT_MAX_STEPS = 200_000
NEGATIVE_TOLERANCE = 1e-3
CONCENTRATION_CEILING = 1e6

MODES = ("steady_state", "dynamic")


class SimulationError(RuntimeError):
    pass


class SimulationDivergenceError(SimulationError):
    pass


class SimulationConvergenceError(SimulationError):
    pass


class ReactorConfigurationError(ValueError):
    pass


@dataclass(frozen=True)
class KineticParameters:
    """ASM1 kinetic parameters at 20 °C (1/d, mg/L)."""
    mu_h: float = 6.0
    k_s: float = 20.0
    k_oh: float = 0.2
    k_no: float = 0.5
    b_h: float = 0.62
    eta_g: float = 0.8
    eta_h: float = 0.4
    k_h: float = 3.0
    k_x: float = 0.03
    mu_a: float = 0.8
    k_nh: float = 1.0
    k_oa: float = 0.4
    b_a: float = 0.15
    k_a: float = 0.08
    k_nh_h: float = 0.05
    k_alk: float = 0.1

    def at_temperature(self, temperature: float) -> "KineticParameters":
        dt = temperature - 20.0
        return replace(self, **{
            name: getattr(self, name) * theta ** dt
            for name, theta in THETA.items()
        })


THETA = {
    "mu_h": 1.072,
    "b_h": 1.029,
    "mu_a": 1.103,
    "b_a": 1.029,
    "k_h": 1.041,
    "k_a": 1.072,
}


@dataclass(frozen=True)
class StoichiometricParameters:
    y_h: float = 0.67
    y_a: float = 0.24
    f_p: float = 0.08
    i_xb: float = 0.086
    i_xp: float = 0.06


def build_stoichiometric_matrix(p: StoichiometricParameters) -> np.ndarray:
    nu = np.zeros((len(PROCESSES), N_STATES))

    nu[0, S_S] = -1.0 / p.y_h
    nu[0, X_BH] = 1.0
    nu[0, S_O] = -(1.0 - p.y_h) / p.y_h
    nu[0, S_NH] = -p.i_xb
    nu[0, S_ALK] = -p.i_xb / 14.0

    nu[1, S_S] = -1.0 / p.y_h
    nu[1, X_BH] = 1.0
    nu[1, S_NO] = -(1.0 - p.y_h) / (2.86 * p.y_h)
    nu[1, S_NH] = -p.i_xb
    nu[1, S_ALK] = (1.0 - p.y_h) / (14.0 * 2.86 * p.y_h) - p.i_xb / 14.0

    nu[2, X_BA] = 1.0
    nu[2, S_O] = -(4.57 - p.y_a) / p.y_a
    nu[2, S_NO] = 1.0 / p.y_a
    nu[2, S_NH] = -p.i_xb - 1.0 / p.y_a
    nu[2, S_ALK] = -p.i_xb / 14.0 - 1.0 / (7.0 * p.y_a)

    for row, biomass in ((3, X_BH), (4, X_BA)):
        nu[row, X_S] = 1.0 - p.f_p
        nu[row, biomass] = -1.0
        nu[row, X_P] = p.f_p
        nu[row, X_ND] = p.i_xb - p.f_p * p.i_xp

    nu[5, S_NH] = 1.0
    nu[5, S_ND] = -1.0
    nu[5, S_ALK] = 1.0 / 14.0

    nu[6, S_S] = 1.0
    nu[6, X_S] = -1.0

    nu[7, S_ND] = 1.0
    nu[7, X_ND] = -1.0

    nu.setflags(write=False)
    return nu


DEFAULT_KINETICS = KineticParameters()
DEFAULT_STOICHIOMETRY = StoichiometricParameters()
STOICHIOMETRIC_MATRIX = build_stoichiometric_matrix(DEFAULT_STOICHIOMETRY)


@dataclass(frozen=True)
class ReactorConfig:
    volume: float                  # m³
    flow: float                    # m³/d
    srt: float                     # d
    do_setpoint: float = 2.0       # mg/L
    temperature: float = 20.0      # °C
    mlss_setpoint: Optional[float] = None
    solids_capture: float = 0.98

    @property
    def hrt(self) -> float:
        return self.volume / self.flow if self.flow > 0 else math.inf


@dataclass(frozen=True)
class SimulationSample:
    """Reactor state at one output time of a run."""
    time: float                     # d
    state: np.ndarray
    process_rates: np.ndarray       # mg COD/L·d, PROCESSES order
    oxygen_uptake: float            # mg O2/L·d
    total_nitrogen: float           # mg N/L, dissolved and bound in solids


@dataclass(frozen=True)
class SimulationResult:
    state: np.ndarray
    mode: str
    converged: bool
    steps: int
    simulated_days: float
    step_size: float
    temperature: float
    effluent: Dict[str, float] = field(default_factory=dict)
    mixed_liquor: Dict[str, float] = field(default_factory=dict)
    oxygen_demand: float = 0.0      # kg O2/d
    sludge_production: float = 0.0  # kg TSS/d
    performance: Dict[str, float] = field(default_factory=dict)
    samples: Tuple[SimulationSample, ...] = ()

    def state_dict(self) -> Dict[str, float]:
        return {name: float(v) for name, v in zip(STATE_COMPONENTS, self.state)}


# ---------------------------------------------------------------------------
# Influent fractionation and effluent mapping
# ---------------------------------------------------------------------------


def fractionate_influent(quality) -> np.ndarray:
    """Split a WaterQuality (or mapping) into the ASM1 state vector."""
    get = quality.get if isinstance(quality, dict) else lambda k: getattr(quality, k, None)
    cod = float(get("cod") or 0.0)
    ammonia = get("ammonia_n")
    nitrate = get("nitrate_n") or 0.0
    total_n = get("total_n")

    if total_n is not None:
        tkn = max(total_n - nitrate, 0.0)
    elif ammonia is not None:
        tkn = ammonia / AMMONIA_FRACTION_OF_TKN
    else:
        tkn = TKN_TO_COD_DEFAULT * cod
    snh = ammonia if ammonia is not None else AMMONIA_FRACTION_OF_TKN * tkn
    snh = min(snh, tkn)
    organic_n = max(tkn - snh, 0.0)

    alkalinity = get("alkalinity")
    if alkalinity is None:
        alkalinity = DEFAULT_ALKALINITY

    y = np.zeros(N_STATES)
    y[S_I] = COD_FRACTIONS["S_I"] * cod
    y[S_S] = COD_FRACTIONS["S_S"] * cod
    y[X_I] = COD_FRACTIONS["X_I"] * cod
    y[X_S] = COD_FRACTIONS["X_S"] * cod
    y[S_O] = get("dissolved_oxygen") or 0.0
    y[S_NO] = nitrate
    y[S_NH] = snh
    y[S_ND] = SOLUBLE_ORGANIC_N_FRACTION * organic_n
    y[X_ND] = (1.0 - SOLUBLE_ORGANIC_N_FRACTION) * organic_n
    y[S_ALK] = alkalinity / ALKALINITY_MG_PER_MOL
    return y


def effluent_quality(
    state: np.ndarray,
    solids_capture: float = 0.98,
    stoichiometry: StoichiometricParameters = DEFAULT_STOICHIOMETRY,
) -> Dict[str, float]:
    p = stoichiometry
    escape = 1.0 - solids_capture
    x_cod = float(state[PARTICULATE_COD].sum())
    biomass = state[X_BH] + state[X_BA]

    tkn = (state[S_NH] + state[S_ND]
           + escape * (state[X_ND] + p.i_xb * biomass + p.i_xp * (state[X_P] + state[X_I])))
    return {
        "cod": float(state[S_I] + state[S_S] + escape * x_cod),
        "bod": float(BOD5_PER_BOD_ULTIMATE * (
            state[S_S] + escape * (state[X_S] + (1.0 - p.f_p) * biomass))),
        "tss": float(TSS_PER_COD * escape * x_cod),
        "ammonia_n": float(state[S_NH]),
        "nitrate_n": float(state[S_NO]),
        "tkn": float(tkn),
        "total_n": float(tkn + state[S_NO]),
        "alkalinity": float(state[S_ALK] * ALKALINITY_MG_PER_MOL),
    }


def total_nitrogen(state: np.ndarray, p: StoichiometricParameters = DEFAULT_STOICHIOMETRY) -> float:
    biomass = state[X_BH] + state[X_BA]
    return float(state[S_NH] + state[S_ND] + state[X_ND] + state[S_NO]
                 + p.i_xb * biomass + p.i_xp * (state[X_P] + state[X_I]))


def removal_performance(influent: Dict[str, float], effluent: Dict[str, float]) -> Dict[str, float]:
    """Percent removal across the reactor for the headline parameters."""
    performance = {}
    for key in ("bod", "cod", "tss", "ammonia_n", "total_n"):
        before = influent[key]
        performance[key] = 100.0 * (1.0 - effluent[key] / before) if before > 0 else 0.0
    return performance


def mixed_liquor(state: np.ndarray) -> Dict[str, float]:
    x_cod = float(state[PARTICULATE_COD].sum())
    return {
        "mlss": TSS_PER_COD * x_cod,
        "mlvss": x_cod / COD_PER_VSS,
        "heterotrophs": float(state[X_BH]),
        "autotrophs": float(state[X_BA]),
    }


# ---------------------------------------------------------------------------
# Kinetics
# ---------------------------------------------------------------------------


def process_rates(state: np.ndarray, k: KineticParameters) -> np.ndarray:
    """The eight ASM1 process rates (mg COD/L·d). Negative states count as zero."""
    c = np.maximum(state, 0.0).tolist()
    ss, xs, xbh, xba = c[S_S], c[X_S], c[X_BH], c[X_BA]
    so, sno, snh, snd, xnd, salk = c[S_O], c[S_NO], c[S_NH], c[S_ND], c[X_ND], c[S_ALK]

    substrate = ss / (k.k_s + ss)
    oxygen_h = so / (k.k_oh + so)
    anoxic_h = k.k_oh / (k.k_oh + so)
    nitrate = sno / (k.k_no + sno)
    nutrient_h = snh / (k.k_nh_h + snh)

    rho1 = k.mu_h * substrate * oxygen_h * nutrient_h * xbh
    rho2 = k.mu_h * substrate * anoxic_h * nitrate * k.eta_g * nutrient_h * xbh
    rho3 = (k.mu_a * snh / (k.k_nh + snh) * so / (k.k_oa + so)
            * salk / (k.k_alk + salk) * xba)
    rho4 = k.b_h * xbh
    rho5 = k.b_a * xba
    rho6 = k.k_a * snd * xbh

    denom = k.k_x * xbh + xs
    if denom > 0.0:
        rho7 = k.k_h * xs / denom * (oxygen_h + k.eta_h * anoxic_h * nitrate) * xbh
    else:
        rho7 = 0.0
    rho8 = rho7 * xnd / xs if xs > 0.0 else 0.0

    return np.array([rho1, rho2, rho3, rho4, rho5, rho6, rho7, rho8])


def _derivative(y, feed, washout, nu, k):
    dydt = feed - washout * y + process_rates(y, k) @ nu
    dydt[S_O] = 0.0
    return dydt


def _rk4_step(y, dt, feed, washout, nu, k):
    k1 = _derivative(y, feed, washout, nu, k)
    k2 = _derivative(y + 0.5 * dt * k1, feed, washout, nu, k)
    k3 = _derivative(y + 0.5 * dt * k2, feed, washout, nu, k)
    k4 = _derivative(y + dt * k3, feed, washout, nu, k)
    return y + dt * (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------


def _validate(influent_state: np.ndarray, config: ReactorConfig) -> None:
    if not (math.isfinite(config.volume) and config.volume > 0):
        raise ReactorConfigurationError(f"Reactor volume must be positive, got {config.volume}")
    if not (math.isfinite(config.srt) and config.srt > 0):
        raise ReactorConfigurationError(f"SRT must be positive, got {config.srt}")
    if not (math.isfinite(config.flow) and config.flow >= 0):
        raise ReactorConfigurationError(f"Flow must be non-negative, got {config.flow}")
    if not math.isfinite(config.temperature):
        raise ReactorConfigurationError("Temperature must be finite")
    if not (math.isfinite(config.do_setpoint) and config.do_setpoint >= 0):
        raise ReactorConfigurationError(f"DO setpoint must be non-negative, got {config.do_setpoint}")
    if not (0.0 < config.solids_capture <= 1.0):
        raise ReactorConfigurationError(f"Solids capture must be in (0, 1], got {config.solids_capture}")
    if influent_state.shape != (N_STATES,):
        raise ReactorConfigurationError(f"Influent state must have {N_STATES} components")
    if not np.all(np.isfinite(influent_state)) or np.any(influent_state < 0):
        raise ReactorConfigurationError("Influent state must be finite and non-negative")


def analytic_initial_state(
    influent_state: np.ndarray,
    config: ReactorConfig,
    k: KineticParameters,
    p: StoichiometricParameters,
) -> np.ndarray:
    """Approximate CSTR steady state used to start the integration."""
    y_in = influent_state
    y = y_in.copy()
    y[S_O] = config.do_setpoint
    srt = config.srt
    ratio = srt / config.hrt if config.flow > 0 else 0.0

    mu_hat = k.mu_h * config.do_setpoint / (k.k_oh + config.do_setpoint)
    d_h = k.b_h + 1.0 / srt
    substrate_in = y_in[S_S] + y_in[X_S]
    if mu_hat > d_h and ratio > 0:
        ss = min(k.k_s * d_h / (mu_hat - d_h), y_in[S_S])
        delta_s = max(substrate_in - ss, 0.0)
        b_eff = k.b_h * (1.0 - p.y_h * (1.0 - p.f_p))
        xbh = ratio * p.y_h * delta_s / (1.0 + b_eff * srt)
    else:
        ss = y_in[S_S]
        xbh = 0.0

    if xbh <= 0.0 and config.mlss_setpoint:
        xbh = 0.4 * config.mlss_setpoint / TSS_PER_COD

    y[S_S] = ss
    y[X_BH] = xbh
    y[X_S] = min(y_in[X_S], 0.5 * k.k_x * xbh) if xbh > 0 else y_in[X_S]
    y[X_P] = p.f_p * k.b_h * xbh * srt
    y[X_I] = y_in[X_I] * ratio

    available_n = y_in[S_NH] + y_in[S_ND] + y_in[X_ND]
    growth_n = p.i_xb * xbh / ratio if ratio > 0 else 0.0
    mu_hat_a = k.mu_a * config.do_setpoint / (k.k_oa + config.do_setpoint)
    d_a = k.b_a + 1.0 / srt
    if mu_hat_a > d_a and ratio > 0:
        snh = k.k_nh * d_a / (mu_hat_a - d_a)
        nitrified = max(available_n - growth_n - snh, 0.0)
        y[S_NH] = min(snh, available_n)
        y[X_BA] = ratio * p.y_a * nitrified / (1.0 + k.b_a * srt)
        y[S_NO] = y_in[S_NO] + nitrified
        y[S_ALK] = max(y_in[S_ALK] - nitrified / 7.0, 0.5)
    else:
        y[S_NH] = max(available_n - growth_n, 0.0)
        y[X_BA] = 0.0
    y[S_ND] = 0.1 * y_in[S_ND]
    y[X_ND] = y_in[X_ND] / y_in[X_S] * y[X_S] if y_in[X_S] > 0 else 0.0
    return y


def characteristic_step_size(
    config: ReactorConfig,
    k: KineticParameters,
    p: StoichiometricParameters,
    y0: np.ndarray,
    y_analytic: np.ndarray,
) -> float:
    xbh = 1.5 * max(y0[X_BH], y_analytic[X_BH])
    xba = 1.5 * max(y0[X_BA], y_analytic[X_BA])
    rates = [
        config.flow / config.volume,
        k.mu_h * xbh / (p.y_h * k.k_s),
        k.mu_h * k.eta_g * (1.0 - p.y_h) / (2.86 * p.y_h) * xbh / k.k_no,
        k.mu_a * xba / (p.y_a * k.k_nh),
        k.k_h / k.k_x,
        k.k_a * xbh,
    ]
    fastest = max(rates)
    return min(MAX_STEP_SIZE, 1.0 / fastest) if fastest > 0 else MAX_STEP_SIZE


def _check_state(y: np.ndarray, step: int) -> np.ndarray:
    if not np.all(np.isfinite(y)):
        raise SimulationDivergenceError(f"Non-finite state at step {step}")
    low = int(np.argmin(y))
    if y[low] < -NEGATIVE_TOLERANCE:
        raise SimulationDivergenceError(
            f"{STATE_COMPONENTS[low]} went negative ({y[low]:.4g}) at step {step}"
        )
    high = int(np.argmax(y))
    if y[high] > CONCENTRATION_CEILING:
        raise SimulationDivergenceError(
            f"{STATE_COMPONENTS[high]} exceeded {CONCENTRATION_CEILING:g} at step {step}"
        )
    return np.maximum(y, 0.0)


def _sample(time: float, y: np.ndarray, nu: np.ndarray, k: KineticParameters,
            p: StoichiometricParameters) -> SimulationSample:
    rates = process_rates(y, k)
    state = y.copy()
    state.setflags(write=False)
    rates.setflags(write=False)
    return SimulationSample(
        time=time,
        state=state,
        process_rates=rates,
        oxygen_uptake=-float((rates @ nu)[S_O]),
        total_nitrogen=total_nitrogen(y, p),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def simulate_reactor(
    influent_state: np.ndarray,
    config: ReactorConfig,
    *,
    kinetics: KineticParameters = DEFAULT_KINETICS,
    stoichiometry: StoichiometricParameters = DEFAULT_STOICHIOMETRY,
    initial_state: Optional[np.ndarray] = None,
    mode: str = "steady_state",
    duration: float = 10.0,
    step_size: Optional[float] = None,
    tolerance: float = DEFAULT_TOLERANCE,
    max_steps: int = DEFAULT_MAX_STEPS,
    output_interval: Optional[float] = None,
) -> SimulationResult:
    """Integrate the reactor to steady state, or for `duration` days in dynamic mode.

    With `output_interval` set, the state is also sampled at t = 0, at every
    multiple of the interval and at the end of the run.
    """
    if mode not in MODES:
        raise ReactorConfigurationError(f"Unknown simulation mode: {mode!r}")
    y_in = np.asarray(influent_state, dtype=float)
    _validate(y_in, config)
    if step_size is not None and not (math.isfinite(step_size) and step_size > 0):
        raise ReactorConfigurationError(f"Step size must be positive, got {step_size}")
    if mode == "dynamic" and not (math.isfinite(duration) and duration > 0):
        raise ReactorConfigurationError(f"Duration must be positive, got {duration}")
    if output_interval is not None and not (math.isfinite(output_interval) and output_interval > 0):
        raise ReactorConfigurationError(f"Output interval must be positive, got {output_interval}")

    k = kinetics.at_temperature(config.temperature)
    p = stoichiometry
    nu = (STOICHIOMETRIC_MATRIX if stoichiometry == DEFAULT_STOICHIOMETRY
          else build_stoichiometric_matrix(stoichiometry))

    y_analytic = analytic_initial_state(y_in, config, k, p)
    if initial_state is not None:
        y = np.asarray(initial_state, dtype=float).copy()
        if y.shape != (N_STATES,) or not np.all(np.isfinite(y)) or np.any(y < 0):
            raise ReactorConfigurationError("Initial state must be finite and non-negative")
    else:
        y = y_analytic
    y[S_O] = config.do_setpoint

    dilution = config.flow / config.volume
    feed = y_in * dilution
    feed[S_O] = 0.0
    washout = np.where(PARTICULATE, 1.0 / config.srt, dilution)

    dt = step_size or characteristic_step_size(config, k, p, y, y_analytic)
    if mode == "dynamic":
        n_steps = max(1, math.ceil(duration / dt - 1e-9))
        if n_steps > max_steps:
            raise SimulationConvergenceError(
                f"Dynamic run of {duration} d needs {n_steps} steps (budget {max_steps})"
            )
        dt = duration / n_steps

    samples = []
    next_sample = math.inf
    if output_interval is not None:
        samples.append(_sample(0.0, y, nu, k, p))
        next_sample = output_interval

    converged = False
    steps = 0
    for steps in range(1, max_steps + 1):
        y_next = _check_state(_rk4_step(y, dt, feed, washout, nu, k), steps)
        t = steps * dt
        if t >= next_sample - 1e-9:
            samples.append(_sample(t, y_next, nu, k, p))
            next_sample = (math.floor(t / output_interval + 1e-9) + 1) * output_interval
        if mode == "steady_state":
            change = float(np.max(np.abs(y_next - y) / (dt * np.maximum(np.abs(y), 1.0))))
            y = y_next
            if change < tolerance:
                converged = True
                break
        else:
            y = y_next
            if steps >= n_steps:
                converged = True
                break
    else:
        raise SimulationConvergenceError(
            f"No steady state within {max_steps} steps (dt={dt:.3g} d)"
        )

    logger.debug(
        "ASM1 %s finished: %d steps, dt=%.3g d, %.1f d simulated",
        mode, steps, dt, steps * dt,
    )

    if samples and samples[-1].time < steps * dt - 1e-9:
        samples.append(_sample(steps * dt, y, nu, k, p))

    oxygen_rate = -float((process_rates(y, k) @ nu)[S_O])
    ml = mixed_liquor(y)
    effluent = effluent_quality(y, config.solids_capture, p)
    y.setflags(write=False)
    return SimulationResult(
        state=y,
        mode=mode,
        converged=converged,
        steps=steps,
        simulated_days=steps * dt,
        step_size=dt,
        temperature=config.temperature,
        effluent=effluent,
        mixed_liquor=ml,
        oxygen_demand=max(oxygen_rate, 0.0) * config.volume / 1000.0,
        sludge_production=config.volume / config.srt * ml["mlss"] / 1000.0,
        performance=removal_performance(effluent_quality(y_in, 0.0, p), effluent),
        samples=tuple(samples),
    )
