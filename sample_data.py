"""
Built-in sample network: three east-coast discharge ports feeding three
inland steel plants. Used by the demo entry point and the test-suite.
"""
from typing import Dict

import pandas as pd

from models import DatasetBundle


def get_toy_dataset() -> Dict[str, pd.DataFrame]:
    """Small validated dataset in the tabular shape accepted by ``DatasetBundle.from_frames``"""
    vessels = pd.DataFrame([
        {'vessel_id': 'V001', 'name': 'MV Ocean Pearl', 'capacity_mt': 75000, 'eta': '2026-10-20',
         'laydays': 3, 'origin': 'Newcastle', 'demurrage_rate': 25000, 'cargo_grade': 'coking_coal'},
        {'vessel_id': 'V002', 'name': 'MV Coal Carrier', 'capacity_mt': 80000, 'eta': '2026-10-21',
         'laydays': 2, 'origin': 'Gladstone', 'demurrage_rate': 28000, 'cargo_grade': 'coking_coal'},
        {'vessel_id': 'V003', 'name': 'MV Iron Trader', 'capacity_mt': 65000, 'eta': '2026-10-22',
         'laydays': 3, 'origin': 'Richards Bay', 'demurrage_rate': 22000, 'cargo_grade': 'coking_coal',
         'freight_rate_per_mt': 1380},
        {'vessel_id': 'V004', 'name': 'MV Eastern Star', 'capacity_mt': 55000, 'eta': '2026-10-23',
         'laydays': 2, 'origin': 'Hay Point', 'demurrage_rate': 20000, 'cargo_grade': 'coking_coal'},
        {'vessel_id': 'V005', 'name': 'MV Bay Runner', 'capacity_mt': 70000, 'eta': '2026-10-25',
         'laydays': 4, 'origin': 'Maputo', 'demurrage_rate': 24000, 'cargo_grade': None},
        {'vessel_id': 'V006', 'name': 'MV Steel Voyager', 'capacity_mt': 60000, 'eta': '2026-10-26',
         'laydays': 2, 'origin': 'Newcastle', 'demurrage_rate': 21000, 'cargo_grade': 'coking_coal'},
    ])

    ports = pd.DataFrame([
        {'port_id': 'KOL', 'name': 'Kolkata', 'max_capacity_mt': 180000, 'current_stock_mt': 20000,
         'handling_cost_per_mt': 145, 'storage_cost_per_mt_per_day': 1.2, 'discharge_rate_mt_per_day': 15000},
        {'port_id': 'PAR', 'name': 'Paradip', 'max_capacity_mt': 260000, 'current_stock_mt': 40000,
         'handling_cost_per_mt': 120, 'storage_cost_per_mt_per_day': 0.9, 'discharge_rate_mt_per_day': 25000},
        {'port_id': 'VIZ', 'name': 'Visakhapatnam', 'max_capacity_mt': 220000, 'current_stock_mt': 30000,
         'handling_cost_per_mt': 130, 'storage_cost_per_mt_per_day': 1.0, 'discharge_rate_mt_per_day': 22000},
    ])

    plants = pd.DataFrame([
        {'plant_id': 'BSL', 'name': 'Bokaro Steel Plant', 'required_material': 'coking_coal',
         'max_capacity_mt': 250000, 'current_stock_mt': 50000, 'rail_connected': True},
        {'plant_id': 'RSP', 'name': 'Rourkela Steel Plant', 'required_material': 'coking_coal',
         'max_capacity_mt': 240000, 'current_stock_mt': 40000, 'rail_connected': True},
        {'plant_id': 'BSP', 'name': 'Bhilai Steel Plant', 'required_material': 'coking_coal',
         'max_capacity_mt': 260000, 'current_stock_mt': 60000, 'rail_connected': True},
    ])

    routes = pd.DataFrame([
        {'route_id': 'R-KOL-BSL', 'port_id': 'KOL', 'plant_id': 'BSL', 'rail_cost_per_mt': 780, 'travel_days': 2, 'max_capacity_mt': 100000},
        {'route_id': 'R-KOL-RSP', 'port_id': 'KOL', 'plant_id': 'RSP', 'rail_cost_per_mt': 920, 'travel_days': 3, 'max_capacity_mt': 100000},
        {'route_id': 'R-PAR-RSP', 'port_id': 'PAR', 'plant_id': 'RSP', 'rail_cost_per_mt': 650, 'travel_days': 2, 'max_capacity_mt': 100000},
        {'route_id': 'R-PAR-BSP', 'port_id': 'PAR', 'plant_id': 'BSP', 'rail_cost_per_mt': 1150, 'travel_days': 4, 'max_capacity_mt': 100000},
        {'route_id': 'R-VIZ-BSP', 'port_id': 'VIZ', 'plant_id': 'BSP', 'rail_cost_per_mt': 890, 'travel_days': 3, 'max_capacity_mt': 100000},
        {'route_id': 'R-VIZ-RSP', 'port_id': 'VIZ', 'plant_id': 'RSP', 'rail_cost_per_mt': 1020, 'travel_days': 3, 'max_capacity_mt': 100000},
    ])

    cost_entries = pd.DataFrame([
        {'cost_type': 'ocean_freight', 'scope': 'global', 'value': 1450, 'currency': 'INR', 'effective_date': '2026-01-01'},
        {'cost_type': 'ocean_freight', 'scope': 'PAR', 'value': 1420, 'currency': 'INR', 'effective_date': '2026-04-01'},
        {'cost_type': 'ocean_freight', 'scope': 'KOL', 'value': 1520, 'currency': 'INR', 'effective_date': '2026-04-01'},
        {'cost_type': 'other', 'scope': 'global', 'value': 35, 'currency': 'INR', 'effective_date': '2026-01-01'},
    ])

    delay_records = pd.DataFrame([
        {'vessel_id': 'H001', 'port_id': 'KOL', 'eta': '2026-08-02', 'arrival': '2026-08-05', 'weather_severity': 0.4, 'congestion_level': 0.7},
        {'vessel_id': 'H002', 'port_id': 'KOL', 'eta': '2026-08-10', 'arrival': '2026-08-12', 'weather_severity': 0.2, 'congestion_level': 0.6},
        {'vessel_id': 'H003', 'port_id': 'KOL', 'eta': '2026-09-01', 'arrival': '2026-09-01', 'weather_severity': 0.1, 'congestion_level': 0.5},
        {'vessel_id': 'H004', 'port_id': 'PAR', 'eta': '2026-08-04', 'arrival': '2026-08-05', 'weather_severity': 0.3, 'congestion_level': 0.3},
        {'vessel_id': 'H005', 'port_id': 'PAR', 'eta': '2026-08-20', 'arrival': '2026-08-20', 'weather_severity': 0.0, 'congestion_level': 0.2},
        {'vessel_id': 'H006', 'port_id': 'VIZ', 'eta': '2026-08-15', 'arrival': '2026-08-17', 'weather_severity': 0.5, 'congestion_level': 0.4},
        {'vessel_id': 'H007', 'port_id': 'VIZ', 'eta': '2026-09-03', 'arrival': '2026-09-04', 'weather_severity': 0.2, 'congestion_level': 0.3},
    ])

    return {
        'vessels': vessels,
        'ports': ports,
        'plants': plants,
        'routes': routes,
        'cost_entries': cost_entries,
        'delay_records': delay_records,
    }


def load_sample_bundle() -> DatasetBundle:
    return DatasetBundle.from_frames(get_toy_dataset())


def three_vessel_example() -> DatasetBundle:
    """Three vessels (75000/80000/65000 MT), three roomy ports, one route each to a distinct plant"""
    data = {
        'vessels': pd.DataFrame([
            {'vessel_id': 'V1', 'name': 'Alpha', 'capacity_mt': 75000, 'eta': '2026-11-01',
             'laydays': 3, 'origin': 'Newcastle', 'demurrage_rate': 25000},
            {'vessel_id': 'V2', 'name': 'Bravo', 'capacity_mt': 80000, 'eta': '2026-11-02',
             'laydays': 3, 'origin': 'Gladstone', 'demurrage_rate': 25000},
            {'vessel_id': 'V3', 'name': 'Charlie', 'capacity_mt': 65000, 'eta': '2026-11-03',
             'laydays': 3, 'origin': 'Richards Bay', 'demurrage_rate': 25000},
        ]),
        'ports': pd.DataFrame([
            {'port_id': 'P1', 'name': 'Port One', 'max_capacity_mt': 200000},
            {'port_id': 'P2', 'name': 'Port Two', 'max_capacity_mt': 200000},
            {'port_id': 'P3', 'name': 'Port Three', 'max_capacity_mt': 200000},
        ]),
        'plants': pd.DataFrame([
            {'plant_id': 'L1', 'name': 'Plant One', 'max_capacity_mt': 200000},
            {'plant_id': 'L2', 'name': 'Plant Two', 'max_capacity_mt': 200000},
            {'plant_id': 'L3', 'name': 'Plant Three', 'max_capacity_mt': 200000},
        ]),
        'routes': pd.DataFrame([
            {'route_id': 'R1', 'port_id': 'P1', 'plant_id': 'L1', 'rail_cost_per_mt': 700, 'travel_days': 2, 'max_capacity_mt': 100000},
            {'route_id': 'R2', 'port_id': 'P2', 'plant_id': 'L2', 'rail_cost_per_mt': 800, 'travel_days': 2, 'max_capacity_mt': 100000},
            {'route_id': 'R3', 'port_id': 'P3', 'plant_id': 'L3', 'rail_cost_per_mt': 900, 'travel_days': 3, 'max_capacity_mt': 100000},
        ]),
    }
    return DatasetBundle.from_frames(data)
