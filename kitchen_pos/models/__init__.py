from kitchen_pos.models.kitchen_owner import KitchenOwner
from kitchen_pos.models.restaurant import Restaurant
from kitchen_pos.models.user import User
from kitchen_pos.models.identity_account import IdentityAccount
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.models.menu_category import MenuCategory
from kitchen_pos.models.menu_item import MenuItem
from kitchen_pos.models.combo_meal import ComboMeal
from kitchen_pos.models.daily_deal import DailyDeal
from kitchen_pos.models.customer import Customer
from kitchen_pos.models.order import Order
from kitchen_pos.models.order_item import OrderItem
from kitchen_pos.models.payment import Payment
from kitchen_pos.models.business_hours import BusinessHours
from kitchen_pos.models.staff_assignment import StaffAssignment
from kitchen_pos.models.order_number_counter import OrderNumberCounter
