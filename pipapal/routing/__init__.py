from pipapal.routing.optimizer import RoutePlan, RoutePoint, haversine_km, plan_route

__all__ = ["RoutePlan", "RoutePoint", "haversine_km", "plan_route"]
