from rest_framework import viewsets, permissions, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.exceptions import OrderNotFound
from orders.filters import OrderFilter
from orders.models import Actor, ActorRole, OrderStatus
from users.models import User

from .serializers import (
    AssignDriverSerializer,
    AssignmentAlarmSerializer,
    DriverAvailabilitySerializer,
    DriverLocationSerializer,
    DriverSerializer,
    EtaSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    PaymentResultSerializer,
    ReasonSerializer,
    TankSizeSerializer,
)
from .services import get_dispatcher, get_driver_tracker


class IsNotBlocked(permissions.BasePermission):
    message = "This account has been blocked."

    def has_permission(self, request, view):
        return not getattr(request.user, "is_blocked", False)

class IsAdminRole(permissions.BasePermission):
    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_admin_user

class IsClient(permissions.BasePermission):
    message = "Only customers can place orders."

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.role == User.Roles.CLIENT

class IsDriver(permissions.BasePermission):
    message = "Only drivers can report location or availability."

    def has_permission(self, request, view):
        return request.user.is_authenticated and hasattr(request.user, "driver_profile")


def actor_for(user):
    """
    The engine actor for a Django user:
    - Admin: admin id is the user id
    - Driver: driver id is the Driver profile id
    - Client: customer id is the user id
    """
    if user.is_admin_user:
        return Actor.admin(user.pk)
    if user.role == User.Roles.DRIVER:
        if not hasattr(user, "driver_profile"):
            raise PermissionDenied("Driver profile missing.")
        return Actor.driver(user.driver_profile.pk)
    return Actor.customer(user.pk)


def _positive_int(params, name, default):
    try:
        value = int(params.get(name, default))
    except (TypeError, ValueError):
        raise ValidationError({name: "Must be an integer."})
    if value < 1:
        raise ValidationError({name: "Must be >= 1."})
    return value


class OrderViewSet(viewsets.ViewSet):
    """
    Gas order placement, tracking and lifecycle actions.
    Every mutation goes through the dispatch engine; role checks on who may
    move an order live in the engine's state machine.
    """
    permission_classes = [permissions.IsAuthenticated, IsNotBlocked]

    def get_permissions(self):
        if self.action == "create":
            return [permissions.IsAuthenticated(), IsNotBlocked(), IsClient()]
        if self.action in ("assign", "payment", "sweep"):
            return [permissions.IsAuthenticated(), IsAdminRole()]
        return super().get_permissions()

    @property
    def dispatcher(self):
        if not hasattr(self, "_dispatcher"):
            self._dispatcher = get_dispatcher()
        return self._dispatcher

    def _respond(self, order, status_code=status.HTTP_200_OK):
        return Response(OrderSerializer(order).data, status=status_code)

    def _visible_order(self, request, pk):
        return self._check_visible(request, self.dispatcher.lifecycle.get_order(pk), pk)

    def _check_visible(self, request, order, lookup):
        """
        Customers see their own orders, drivers the ones bound to them, admins everything.
        Others get a 404 rather than learning the order exists.
        """
        actor = actor_for(request.user)
        if actor.role == ActorRole.ADMIN:
            return order
        if actor.role == ActorRole.CUSTOMER and order.customer_id == actor.id:
            return order
        if actor.role == ActorRole.DRIVER and order.driver_id == actor.id:
            return order
        raise OrderNotFound(lookup)

    def list(self, request):
        """
        Filter orders by role:
        - Customer: their order history, newest first
        - Driver: orders they handled, paginated (?page=&limit=)
        - Admin: every order, optionally ?status=PENDING
        """
        actor = actor_for(request.user)
        lifecycle = self.dispatcher.lifecycle

        if actor.role == ActorRole.CUSTOMER:
            orders = lifecycle.get_customer_history(actor.id)
            return Response(OrderSerializer(orders, many=True).data)

        if actor.role == ActorRole.DRIVER:
            page = _positive_int(request.query_params, "page", 1)
            limit = _positive_int(request.query_params, "limit", 20)
            orders, total = lifecycle.get_driver_history(actor.id, page=page, limit=limit)
            return Response({
                "orders": OrderSerializer(orders, many=True).data,
                "total": total,
                "page": page,
                "pages": (total + limit - 1) // limit,
            })

        wanted = request.query_params.get("status")
        if wanted and wanted not in OrderStatus.__members__:
            raise ValidationError({"status": f"Unknown status {wanted}."})
        order_filter = OrderFilter(statuses=frozenset({OrderStatus(wanted)})) if wanted else OrderFilter()
        orders = lifecycle.repository.find_orders(order_filter, newest_first=True)
        return Response(OrderSerializer(orders, many=True).data)

    def retrieve(self, request, pk=None):
        return self._respond(self._visible_order(request, pk))

    def create(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.dispatcher.place_order(str(request.user.pk), **serializer.validated_data)
        return self._respond(order, status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def active(self, request):
        customer_id = str(request.user.pk)
        orders = self.dispatcher.lifecycle.get_active_orders(customer_id)
        return Response({
            "has_active_order": self.dispatcher.has_active_order(customer_id),
            "orders": OrderSerializer(orders, many=True).data,
        })

    @action(detail=False, methods=['get'], url_path=r'track/(?P<tracking_id>[^/]+)')
    def track(self, request, tracking_id=None):
        order = self.dispatcher.lifecycle.track_order(tracking_id)
        return self._respond(self._check_visible(request, order, tracking_id))

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """
        Admin assignment. With a driver_id the order is bound (or moved) to that
        driver; without one the best available driver is picked.
        """
        serializer = AssignDriverSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.dispatcher.assign(pk, serializer.validated_data.get("driver_id"), actor_for(request.user))
        if result.error is not None:
            raise result.error
        return self._respond(result.order)

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        return self._respond(self.dispatcher.accept(pk, actor_for(request.user)))

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = self.dispatcher.decline(pk, actor_for(request.user), serializer.validated_data.get("reason"))
        # the declining driver no longer sees the order; only confirm the hand-back
        return Response({"status": "declined", "reassigned": result.assigned})

    @action(detail=True, methods=['post'])
    def acknowledge(self, request, pk=None):
        alarm = self.dispatcher.acknowledge(pk, actor_for(request.user))
        return Response(AssignmentAlarmSerializer(alarm).data)

    @action(detail=True, methods=['get'], url_path='pending-acknowledgement')
    def pending_acknowledgement(self, request, pk=None):
        self._visible_order(request, pk)
        alarm = self.dispatcher.pending_acknowledgement(pk)
        return Response({
            "pending": alarm is not None,
            "alarm": AssignmentAlarmSerializer(alarm).data if alarm is not None else None,
        })

    @action(detail=False, methods=['post'])
    def sweep(self, request):
        """
        Run the periodic jobs on demand: expire silent drivers, then place waiting orders.
        """
        taken_back = self.dispatcher.sweep_acknowledgements()
        placed = self.dispatcher.sweep()
        return Response({
            "reassigned": sum(1 for r in taken_back if r.assigned),
            "expired": len(taken_back),
            "assigned": sum(1 for r in placed if r.assigned),
            "pending_tried": len(placed),
        })

    @action(detail=True, methods=['post'])
    def pickup(self, request, pk=None):
        return self._respond(self.dispatcher.pick_up(pk, actor_for(request.user)))

    @action(detail=True, methods=['post'])
    def transit(self, request, pk=None):
        return self._respond(self.dispatcher.start_transit(pk, actor_for(request.user)))

    @action(detail=True, methods=['post'])
    def deliver(self, request, pk=None):
        return self._respond(self.dispatcher.deliver(pk, actor_for(request.user)))

    @action(detail=True, methods=['post'], url_path='confirm-delivery')
    def confirm_delivery(self, request, pk=None):
        return self._respond(self.dispatcher.confirm_delivery(pk, actor_for(request.user)))

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.dispatcher.cancel(pk, actor_for(request.user), serializer.validated_data.get("reason"))
        return self._respond(order)

    @action(detail=True, methods=['post'])
    def payment(self, request, pk=None):
        """
        Record the outcome reported by the payment provider or the POS terminal.
        """
        serializer = PaymentResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = self.dispatcher.record_payment_result(
            pk, serializer.validated_data["payment_status"], serializer.validated_data.get("reference")
        )
        return self._respond(order)


class PosEligibilityView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsNotBlocked]

    def get(self, request):
        return Response({"can_use_pos": get_dispatcher().can_use_pos(str(request.user.pk))})


class DriverLocationView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsDriver]

    def post(self, request):
        serializer = DriverLocationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        estimates = get_driver_tracker().update_location(
            request.user.driver_profile.pk,
            serializer.validated_data["latitude"],
            serializer.validated_data["longitude"],
        )
        return Response({"status": "ok", "etas": EtaSerializer(estimates, many=True).data})


class DriverAvailabilityView(APIView):
    permission_classes = [permissions.IsAuthenticated, IsNotBlocked, IsDriver]

    def post(self, request):
        serializer = DriverAvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        driver = get_driver_tracker().set_availability(
            request.user.driver_profile.pk, serializer.validated_data["is_available"]
        )
        return Response(DriverSerializer(driver).data)


class TankSizeListView(APIView):
    """
    Cylinder sizes customers can order; admins may pass ?include_inactive=true.
    """
    permission_classes = [permissions.IsAuthenticated, IsNotBlocked]

    def get(self, request):
        include_inactive = (
            request.user.is_admin_user
            and request.query_params.get("include_inactive", "").lower() in ("1", "true")
        )
        sizes = get_dispatcher().list_tank_sizes(include_inactive)
        return Response(TankSizeSerializer(sizes, many=True).data)
